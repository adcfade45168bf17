from pathlib import Path

from barberbook.db.session import engine
from barberbook.db.base_class import Base
from barberbook.models.organization import Organization, OrgUser
from barberbook.models.catalog import Unit, Service, Professional
from barberbook.models.appointment import Appointment, AppointmentPayment
from barberbook.models.message import Message

SQL_DIR = Path(__file__).parent / "barberbook" / "db" / "sql"

def init_db():
    print("Initializing database...")
    Base.metadata.create_all(bind=engine)

    # Store-side procedures; plpgsql bodies contain % and : so skip param parsing
    with engine.begin() as conn:
        conn = conn.execution_options(no_parameters=True)
        for sql_file in sorted(SQL_DIR.glob("*.sql")):
            print(f"Installing {sql_file.name}")
            conn.exec_driver_sql(sql_file.read_text())

    print("Database initialized successfully.")

if __name__ == "__main__":
    init_db()
