from challenge_hub.core.errors import ConfigurationError
from challenge_hub.core.logging_config import get_logger
from challenge_hub.db import create_db_and_tables

logger = get_logger(__name__)

if __name__ == "__main__":
    print("Creating tables...")
    try:
        create_db_and_tables()
        print("Tables created successfully!")
    except ConfigurationError as e:
        logger.error("Database is not configured", missing=e.missing)
        print(f"Set these environment variables first: {', '.join(e.missing)}")
