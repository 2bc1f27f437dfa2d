import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from config import DATABASE_PATH, DATABASE_TIMEOUT_SECONDS, SEED_DEFAULT_DATA
from errors import Conflict, InvalidRequest
from security import hash_password

logger = logging.getLogger(__name__)

SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password_hash TEXT,
        provider_id TEXT,
        provider_type TEXT NOT NULL DEFAULT 'EMAIL',
        UNIQUE (provider_id, provider_type)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS user_roles (
        user_id INTEGER NOT NULL,
        role TEXT NOT NULL,
        PRIMARY KEY (user_id, role),
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS patients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        birth_date TEXT,
        email TEXT UNIQUE,
        gender TEXT,
        blood_group TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        user_id INTEGER UNIQUE,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS insurance (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        policy_number TEXT UNIQUE NOT NULL,
        provider TEXT NOT NULL,
        valid_until TEXT NOT NULL,
        created_at TEXT NOT NULL,
        patient_id INTEGER UNIQUE NOT NULL,
        FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE CASCADE
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS doctors (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        specialization TEXT,
        email TEXT UNIQUE,
        FOREIGN KEY (id) REFERENCES users(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS departments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        head_doctor_id INTEGER,
        FOREIGN KEY (head_doctor_id) REFERENCES doctors(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS department_doctors (
        department_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL,
        PRIMARY KEY (department_id, doctor_id),
        FOREIGN KEY (department_id) REFERENCES departments(id) ON DELETE CASCADE,
        FOREIGN KEY (doctor_id) REFERENCES doctors(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS appointments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        appointment_time TEXT NOT NULL,
        reason TEXT NOT NULL,
        patient_id INTEGER NOT NULL,
        doctor_id INTEGER NOT NULL,
        FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE CASCADE,
        FOREIGN KEY (doctor_id) REFERENCES doctors(id)
    )
    ''',
]

# Ids 1-5 are patients, 6-8 doctors, 9 the administrator
DEFAULT_PASSWORD = "password123"
DEFAULT_USERS = [
    (1, "aarav.sharma@example.com", "PATIENT"),
    (2, "diya.patel@example.com", "PATIENT"),
    (3, "dishant.verma@example.com", "PATIENT"),
    (4, "neha.iyer@example.com", "PATIENT"),
    (5, "kabir.singh@example.com", "PATIENT"),
    (6, "rakesh.mehta@example.com", "DOCTOR"),
    (7, "sneha.kapoor@example.com", "DOCTOR"),
    (8, "arjun.nair@example.com", "DOCTOR"),
]
DEFAULT_ADMIN = (9, "admin@example.com", "admin123")

DEFAULT_PATIENTS = [
    (1, "Aarav Sharma", "MALE", "1990-05-10", "aarav.sharma@example.com", "O_POSITIVE"),
    (2, "Diya Patel", "FEMALE", "1995-08-20", "diya.patel@example.com", "A_POSITIVE"),
    (3, "Dishant Verma", "MALE", "1988-03-15", "dishant.verma@example.com", "A_POSITIVE"),
    (4, "Neha Iyer", "FEMALE", "1992-12-01", "neha.iyer@example.com", "AB_POSITIVE"),
    (5, "Kabir Singh", "MALE", "1993-07-11", "kabir.singh@example.com", "O_POSITIVE"),
]

DEFAULT_DOCTORS = [
    (6, "Dr. Rakesh Mehta", "Cardiology", "rakesh.mehta@example.com"),
    (7, "Dr. Sneha Kapoor", "Dermatology", "sneha.kapoor@example.com"),
    (8, "Dr. Arjun Nair", "Orthopedics", "arjun.nair@example.com"),
]

DEFAULT_APPOINTMENTS = [
    ("2025-07-01T10:30:00", "General Checkup", 6, 2),
    ("2025-07-02T11:00:00", "Skin Rash", 7, 2),
    ("2025-07-03T09:45:00", "Knee Pain", 8, 3),
    ("2025-07-04T14:00:00", "Follow-up Visit", 6, 1),
    ("2025-07-05T16:15:00", "Consultation", 6, 4),
    ("2025-07-06T08:30:00", "Allergy Treatment", 7, 5),
]


def init_database(seed: bool = SEED_DEFAULT_DATA):
    """Initialize SQLite database with tables"""
    with transaction() as conn:
        for statement in SCHEMA:
            conn.execute(statement)

        if seed and conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 0:
            _seed_default_data(conn)


def _seed_default_data(conn: sqlite3.Connection):
    password_hash = hash_password(DEFAULT_PASSWORD)
    for user_id, username, role in DEFAULT_USERS:
        conn.execute(
            "INSERT INTO users (id, username, password_hash, provider_type) VALUES (?, ?, ?, 'EMAIL')",
            (user_id, username, password_hash),
        )
        conn.execute("INSERT INTO user_roles (user_id, role) VALUES (?, ?)", (user_id, role))

    admin_id, admin_username, admin_password = DEFAULT_ADMIN
    conn.execute(
        "INSERT INTO users (id, username, password_hash, provider_type) VALUES (?, ?, ?, 'EMAIL')",
        (admin_id, admin_username, hash_password(admin_password)),
    )
    conn.execute("INSERT INTO user_roles (user_id, role) VALUES (?, 'ADMIN')", (admin_id,))

    conn.executemany('''
        INSERT INTO patients (user_id, name, gender, birth_date, email, blood_group)
        VALUES (?, ?, ?, ?, ?, ?)
    ''', DEFAULT_PATIENTS)
    conn.executemany(
        "INSERT INTO doctors (id, name, specialization, email) VALUES (?, ?, ?, ?)",
        DEFAULT_DOCTORS,
    )
    conn.executemany('''
        INSERT INTO appointments (appointment_time, reason, doctor_id, patient_id)
        VALUES (?, ?, ?, ?)
    ''', DEFAULT_APPOINTMENTS)
    logger.info("Seeded default users, patients, doctors and appointments")


@contextmanager
def get_db():
    """Database connection context manager"""
    conn = sqlite3.connect(DATABASE_PATH, timeout=DATABASE_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row  # Enable dict-like access
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction():
    """Connection whose statements commit together or not at all"""
    with get_db() as conn:
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise


def _integrity_error(exc: sqlite3.IntegrityError, message: str) -> Exception:
    """Map a constraint failure onto the error taxonomy"""
    if "UNIQUE" in str(exc) or "PRIMARY KEY" in str(exc):
        return Conflict(message)
    return InvalidRequest(str(exc))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Accounts

def _with_roles(conn: sqlite3.Connection, row: Optional[sqlite3.Row]):
    if row is None:
        return None
    user = dict(row)
    cursor = conn.execute("SELECT role FROM user_roles WHERE user_id = ?", (user["id"],))
    user["roles"] = [r["role"] for r in cursor.fetchall()]
    return user


def get_user_by_username(username: str):
    """Get user by username from database"""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        return _with_roles(conn, row)


def get_user_by_id(user_id: int):
    """Get user by ID from database"""
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _with_roles(conn, row)


def get_user_by_provider(provider_id: str, provider_type: str):
    """Get user by external identity provider id"""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE provider_id = ? AND provider_type = ?",
            (provider_id, provider_type),
        ).fetchone()
        return _with_roles(conn, row)


def create_account_with_patient(username: str, password_hash: Optional[str], provider_id: Optional[str],
                                provider_type: str, roles: Iterable[str], patient_name: str,
                                email: Optional[str]) -> int:
    """Create an account, its roles and its patient profile in one transaction"""
    try:
        with transaction() as conn:
            cursor = conn.execute('''
                INSERT INTO users (username, password_hash, provider_id, provider_type)
                VALUES (?, ?, ?, ?)
            ''', (username, password_hash, provider_id, provider_type))
            user_id = cursor.lastrowid
            conn.executemany(
                "INSERT INTO user_roles (user_id, role) VALUES (?, ?)",
                [(user_id, role) for role in roles],
            )
            conn.execute(
                "INSERT INTO patients (user_id, name, email) VALUES (?, ?, ?)",
                (user_id, patient_name, email),
            )
            return user_id
    except sqlite3.IntegrityError as exc:
        raise _integrity_error(exc, f"User already exists: {username}") from exc


def update_username(user_id: int, username: str):
    """Change the login name of an account and the email on its patient and doctor profiles"""
    try:
        with transaction() as conn:
            conn.execute("UPDATE users SET username = ? WHERE id = ?", (username, user_id))
            conn.execute("UPDATE patients SET email = ? WHERE user_id = ?", (username, user_id))
            conn.execute("UPDATE doctors SET email = ? WHERE id = ?", (username, user_id))
    except sqlite3.IntegrityError as exc:
        raise _integrity_error(exc, f"User already exists: {username}") from exc


# Patients

def _patient_with_insurance(conn: sqlite3.Connection, row: Optional[sqlite3.Row]):
    if row is None:
        return None
    patient = dict(row)
    insurance = conn.execute("SELECT * FROM insurance WHERE patient_id = ?", (patient["id"],)).fetchone()
    patient["insurance"] = dict(insurance) if insurance else None
    return patient


def get_patient(patient_id: int):
    with get_db() as conn:
        row = conn.execute("SELECT * FROM patients WHERE id = ?", (patient_id,)).fetchone()
        return _patient_with_insurance(conn, row)


def get_patient_by_user(user_id: int):
    with get_db() as conn:
        row = conn.execute("SELECT * FROM patients WHERE user_id = ?", (user_id,)).fetchone()
        return _patient_with_insurance(conn, row)


def list_patients(offset: int, limit: int) -> List[dict]:
    with get_db() as conn:
        cursor = conn.execute("SELECT * FROM patients ORDER BY id LIMIT ? OFFSET ?", (limit, offset))
        return [_patient_with_insurance(conn, row) for row in cursor.fetchall()]


def count_patients() -> int:
    with get_db() as conn:
        return conn.execute("SELECT COUNT(*) FROM patients").fetchone()[0]


def delete_patient(patient_id: int) -> bool:
    with transaction() as conn:
        cursor = conn.execute("DELETE FROM patients WHERE id = ?", (patient_id,))
        return cursor.rowcount > 0


def assign_insurance(patient_id: int, policy_number: str, provider: str, valid_until: date):
    """Attach insurance to a patient, replacing whatever policy was there"""
    try:
        with transaction() as conn:
            conn.execute("DELETE FROM insurance WHERE patient_id = ?", (patient_id,))
            cursor = conn.execute('''
                INSERT INTO insurance (policy_number, provider, valid_until, created_at, patient_id)
                VALUES (?, ?, ?, ?, ?)
            ''', (policy_number, provider, valid_until.isoformat(), _now(), patient_id))
            row = conn.execute("SELECT * FROM insurance WHERE id = ?", (cursor.lastrowid,)).fetchone()
            return dict(row)
    except sqlite3.IntegrityError as exc:
        raise _integrity_error(exc, f"Policy number already in use: {policy_number}") from exc


def remove_insurance(patient_id: int) -> bool:
    with transaction() as conn:
        cursor = conn.execute("DELETE FROM insurance WHERE patient_id = ?", (patient_id,))
        return cursor.rowcount > 0


# Doctors and departments

def list_doctors() -> List[dict]:
    with get_db() as conn:
        return [dict(row) for row in conn.execute("SELECT * FROM doctors ORDER BY id").fetchall()]


def get_doctor(doctor_id: int):
    with get_db() as conn:
        row = conn.execute("SELECT * FROM doctors WHERE id = ?", (doctor_id,)).fetchone()
        return dict(row) if row else None


def create_doctor_for_user(user_id: int, name: str, specialization: str, email: str):
    """Create the doctor profile and grant the DOCTOR role in one transaction"""
    try:
        with transaction() as conn:
            conn.execute(
                "INSERT INTO doctors (id, name, specialization, email) VALUES (?, ?, ?, ?)",
                (user_id, name, specialization, email),
            )
            conn.execute("INSERT OR IGNORE INTO user_roles (user_id, role) VALUES (?, 'DOCTOR')", (user_id,))
            return dict(conn.execute("SELECT * FROM doctors WHERE id = ?", (user_id,)).fetchone())
    except sqlite3.IntegrityError as exc:
        if "doctors.email" in str(exc):
            raise _integrity_error(exc, f"Doctor email already in use: {email}") from exc
        raise _integrity_error(exc, "Already a doctor") from exc


def _department_with_doctors(conn: sqlite3.Connection, row: sqlite3.Row):
    department = dict(row)
    cursor = conn.execute(
        "SELECT doctor_id FROM department_doctors WHERE department_id = ? ORDER BY doctor_id",
        (department["id"],),
    )
    department["doctor_ids"] = [r["doctor_id"] for r in cursor.fetchall()]
    return department


def create_department(name: str, head_doctor_id: Optional[int]):
    try:
        with transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO departments (name, head_doctor_id) VALUES (?, ?)",
                (name, head_doctor_id),
            )
            department_id = cursor.lastrowid
            if head_doctor_id is not None:
                conn.execute(
                    "INSERT INTO department_doctors (department_id, doctor_id) VALUES (?, ?)",
                    (department_id, head_doctor_id),
                )
            row = conn.execute("SELECT * FROM departments WHERE id = ?", (department_id,)).fetchone()
            return _department_with_doctors(conn, row)
    except sqlite3.IntegrityError as exc:
        raise _integrity_error(exc, f"Department already exists: {name}") from exc


def get_department(department_id: int):
    with get_db() as conn:
        row = conn.execute("SELECT * FROM departments WHERE id = ?", (department_id,)).fetchone()
        return _department_with_doctors(conn, row) if row else None


def list_departments() -> List[dict]:
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM departments ORDER BY id").fetchall()
        return [_department_with_doctors(conn, row) for row in rows]


def add_doctor_to_department(department_id: int, doctor_id: int):
    with transaction() as conn:
        conn.execute(
            "INSERT OR IGNORE INTO department_doctors (department_id, doctor_id) VALUES (?, ?)",
            (department_id, doctor_id),
        )


# Appointments

def create_appointment(patient_id: int, doctor_id: int, appointment_time: datetime, reason: str):
    with transaction() as conn:
        cursor = conn.execute('''
            INSERT INTO appointments (appointment_time, reason, patient_id, doctor_id)
            VALUES (?, ?, ?, ?)
        ''', (appointment_time.isoformat(), reason, patient_id, doctor_id))
        row = conn.execute("SELECT * FROM appointments WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return dict(row)


def get_appointment(appointment_id: int):
    with get_db() as conn:
        row = conn.execute("SELECT * FROM appointments WHERE id = ?", (appointment_id,)).fetchone()
        return dict(row) if row else None


def list_appointments_for_doctor(doctor_id: int) -> List[dict]:
    with get_db() as conn:
        cursor = conn.execute(
            "SELECT * FROM appointments WHERE doctor_id = ? ORDER BY appointment_time",
            (doctor_id,),
        )
        return [dict(row) for row in cursor.fetchall()]


def update_appointment_doctor(appointment_id: int, doctor_id: int):
    with transaction() as conn:
        conn.execute("UPDATE appointments SET doctor_id = ? WHERE id = ?", (doctor_id, appointment_id))
        row = conn.execute("SELECT * FROM appointments WHERE id = ?", (appointment_id,)).fetchone()
        return dict(row) if row else None


def delete_appointment(appointment_id: int) -> bool:
    with transaction() as conn:
        cursor = conn.execute("DELETE FROM appointments WHERE id = ?", (appointment_id,))
        return cursor.rowcount > 0
