import sys
import os

# Add project root to sys.path
sys.path.append(os.getcwd())

from portal_app import create_app, db
from portal_app.models import (
    Student, Submission, Notice, Resource, CampusImage, CampusMemory, SiteConfig, TeamMember, AuditLog,
)

app = create_app()

with app.app_context():
    try:
        print("Verifying database models...")
        db.create_all()
        print("Database models verified.")

        for model in (Student, Submission, Notice, Resource, CampusImage, CampusMemory, SiteConfig, TeamMember, AuditLog):
            print(f"{model.__name__} count: {model.query.count()}")

        upload_root = app.config["UPLOAD_FOLDER"]
        os.makedirs(upload_root, exist_ok=True)
        print(f"Upload folder: {upload_root}")

        print("Verification successful!")
    except Exception as e:
        print(f"Verification failed: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
