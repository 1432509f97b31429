"""
Create the MySQL database, its tables and the first administrator

Usage:
    python scripts/create_database.py

The administrator is seeded from ADMIN_EMAIL / ADMIN_PASSWORD (and optional
ADMIN_FULL_NAME) when no administrator exists yet.
"""
import os
import sys
import pymysql
from dotenv import load_dotenv
from sqlalchemy.engine import make_url

# Load .env file if it exists
env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), '.env')
if os.path.exists(env_path):
    load_dotenv(env_path)

# Add project root to path so the bbos package imports without installation
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from bbos.core.config import settings


def create_database() -> bool:
    """Create database if it doesn't exist"""
    url = make_url(settings.DATABASE_URL)
    if not url.drivername.startswith("mysql"):
        print(f"DATABASE_URL uses {url.drivername}; nothing to create on the server.")
        return True

    host = url.host or "localhost"
    port = url.port or 3306
    user = url.username or "root"
    database = url.database or "bbos"

    print(f"Connecting to MySQL server: {user}@{host}:{port}")

    try:
        # Connect to MySQL server (without specifying database)
        connection = pymysql.connect(
            host=host,
            port=port,
            user=user,
            password=url.password or "",
            charset="utf8mb4"
        )

        with connection.cursor() as cursor:
            cursor.execute("SHOW DATABASES LIKE %s", (database,))
            if cursor.fetchone():
                print(f"Database '{database}' already exists.")
            else:
                cursor.execute(f"CREATE DATABASE `{database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
                print(f"Database '{database}' created successfully.")

        connection.close()
        return True

    except Exception as e:
        print(f"Error creating database: {str(e)}")
        return False


def create_tables_and_admin() -> bool:
    """Create missing tables and seed the first administrator"""
    from bbos.core.database import SessionLocal, init_db
    from bbos.core.exceptions import DataCollectionError
    from bbos.services.auth_service import AuthService

    init_db()

    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        print("ADMIN_EMAIL / ADMIN_PASSWORD not set; skipping administrator seed.")
        return True

    db = SessionLocal()
    try:
        profile = AuthService(db).temp_signup(email, password, os.getenv("ADMIN_FULL_NAME"))
        print(f"Administrator {profile['email']} created.")
    except DataCollectionError as e:
        print(f"Administrator not created: {e.message}")
    finally:
        db.close()
    return True


if __name__ == "__main__":
    success = create_database() and create_tables_and_admin()
    sys.exit(0 if success else 1)
