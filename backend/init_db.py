"""Initialize database with a demo project and A/B test."""
import sys
from sqlalchemy.orm import Session
from tracklab.database import SessionLocal, engine, Base
from tracklab.models import Project, ABTest
from tracklab.api.projects import generate_api_key


def init_database():
    """Create tables, one project and one active two-creative test."""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()

    try:
        existing = db.query(Project).first()
        if existing:
            print("✓ Database already initialized")
            return

        project = Project(
            name="Demo site",
            url="http://localhost:8080",
            api_key=generate_api_key(),
            allowed_origins=["http://localhost:8080"]
        )
        db.add(project)
        db.commit()
        print(f"✓ Created project with ID: {project.id}")

        abtest = ABTest(
            project_id=project.id,
            name="Headline colour",
            active=True,
            cv_code="purchase",
            target_url="",
            exclude_url="",
            session_duration=720,
            conditions={"device": [], "browser": [], "os": [], "language": [], "other": []},
            creatives=[
                {"name": "original", "distribution": 1, "isOriginal": True, "css": "", "javascript": ""},
                {"name": "red", "distribution": 1, "isOriginal": False, "css": "h1{color:red}", "javascript": ""},
            ]
        )
        db.add(abtest)
        db.commit()
        print(f"✓ Created A/B test: {abtest.name}")

        print("\n" + "="*50)
        print("✓ Database initialized successfully!")
        print("="*50)
        print(f"\nProject ID: {project.id}")
        print(f"API Key (SDK credential and signing secret): {project.api_key}")
        print("\n" + "="*50)

    except Exception as e:
        print(f"✗ Error initializing database: {e}")
        db.rollback()
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    init_database()
