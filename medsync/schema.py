"""
Datastore schema for the tracked record tables.

Every table keys on `id INTEGER PRIMARY KEY`; INSERT OR REPLACE resolves
conflicts on that key.
"""

AME_RECORDS_SCHEMA = """
    CREATE TABLE IF NOT EXISTS ame_records (
        id INTEGER PRIMARY KEY,
        personnel_id TEXT,
        rank TEXT,
        full_name TEXT,
        name TEXT,
        unit TEXT,
        age INTEGER,
        height REAL,
        weight REAL,
        chest REAL,
        waist_hip_ratio REAL,
        bmi REAL,
        pulse INTEGER,
        blood_group TEXT,
        blood_pressure TEXT,
        vision TEXT,
        previous_medical_category TEXT,
        ame_date TEXT,
        present_category_awarded TEXT,
        category_reason TEXT,
        remarks TEXT,
        ame_status TEXT DEFAULT 'pending'
    )
"""

LOW_MEDICAL_RECORDS_SCHEMA = """
    CREATE TABLE IF NOT EXISTS low_medical_records (
        id INTEGER PRIMARY KEY,
        personnel_id TEXT,
        rank TEXT,
        full_name TEXT,
        unit TEXT,
        category TEXT,
        medical_category TEXT,
        category_allotment_date TEXT,
        last_medical_board_date TEXT,
        medical_board_due_date TEXT,
        remarks TEXT
    )
"""

PRESCRIPTIONS_SCHEMA = """
    CREATE TABLE IF NOT EXISTS prescriptions (
        id INTEGER PRIMARY KEY,
        personnel_id TEXT,
        full_name TEXT,
        rank TEXT,
        unit TEXT,
        diagnosis TEXT NOT NULL,
        symptoms TEXT,
        medications TEXT,
        instructions TEXT,
        follow_up_date TEXT,
        prescription_date TEXT,
        doctor_id INTEGER,
        doctor_name TEXT
    )
"""

TABLE_SCHEMAS = {
    "ame_records": AME_RECORDS_SCHEMA,
    "low_medical_records": LOW_MEDICAL_RECORDS_SCHEMA,
    "prescriptions": PRESCRIPTIONS_SCHEMA,
}
