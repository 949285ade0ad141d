"""Create demo staff accounts and a few of today's visits."""
from frontdesk.app import create_app
from frontdesk.services.auth_service import AuthService
from frontdesk.services.patient_repository import get_repository


def seed():
    app = create_app()
    with app.app_context():
        auth = AuthService()

        # 1. Users
        print("Creating users...")
        auth.register_user("doctor1", "doc123", "doctor", "Dr. Mehta")
        auth.register_user("reception1", "rec123", "receptionist", "Front Desk")

        # 2. Visits
        print("Registering today's patients...")
        repo = get_repository()
        repo.refresh()
        patients = [
            {"name": "Asha", "age": 34, "gender": "Female", "phone": "555-0100", "address": "12 Lake Road"},
            {"name": "Ravi", "age": 52, "gender": "Male", "phone": "555-0101", "address": "4 Hill Street",
             "symptoms": "Fever for two days"},
        ]
        for patient in patients:
            visit = repo.register(patient, created_by="reception1")
            print(f"  {visit.token_number} {visit.name}")

        print("Done.")


if __name__ == "__main__":
    seed()
