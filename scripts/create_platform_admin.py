# scripts/create_platform_admin.py
"""
Create the tables and the first platform administrator

Credentials come from ADMIN_EMAIL and ADMIN_PASSWORD.
Run from the repository root: python -m scripts.create_platform_admin
"""
import os

from app.config.database import SessionLocal, init_db
from app.shared.database.models import User
from app.core.auth.service import AuthService

def create_platform_admin():
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        print("❌ ADMIN_EMAIL and ADMIN_PASSWORD must be set")
        return False

    init_db()
    print("✅ Tables ready")

    db = SessionLocal()

    try:
        existing = db.query(User).filter(User.email == email.lower()).first()
        if existing:
            if not existing.is_platform_admin:
                existing.role = "platform_admin"
                db.commit()
                print(f"✅ {email} promoted to platform administrator")
            else:
                print(f"✅ {email} is already a platform administrator")
            return True

        user = User(
            email=email.lower(),
            password_hash=AuthService.get_password_hash(password),
            first_name="Platform",
            last_name="Admin",
            role="platform_admin",
            is_active=True
        )
        db.add(user)
        db.commit()
        print(f"🎉 Platform administrator created: {email}")
        return True

    except Exception as e:
        db.rollback()
        print(f"❌ Error creating administrator: {e}")
        return False

    finally:
        db.close()

if __name__ == "__main__":
    create_platform_admin()
