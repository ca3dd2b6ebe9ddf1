# scripts/cleanup_idle_sessions.py
"""
Cancel idle scan sessions (run from cron, e.g. every 15 minutes)

Run from the repository root: python -m scripts.cleanup_idle_sessions
"""
import logging

from app.config.database import SessionLocal
from app.config.settings import settings
from app.modules.scan.service import cleanup_idle_sessions

def main():
    logging.basicConfig(level=settings.log_level.upper())
    db = SessionLocal()

    try:
        outcome = cleanup_idle_sessions(db)
        print(f"✅ Closed {outcome['cleaned']} idle sessions ({outcome['excluded']} kept for recent activity)")
    except Exception as e:
        db.rollback()
        print(f"❌ Idle session cleanup failed: {e}")
        raise
    finally:
        db.close()

if __name__ == "__main__":
    main()
