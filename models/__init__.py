from models.db_storage import DBStorage

# Shared storage; create_app() calls reload() with the configured DATABASE_URL
storage = DBStorage()
