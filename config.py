import logging
import os
from dotenv import load_dotenv

load_dotenv()

SNAPSHOT_PATH = os.getenv(
    'FLASHCARDS_SNAPSHOT_PATH',
    os.path.join(os.path.dirname(os.path.abspath(__file__)), 'flashmind.db')
)
SNAPSHOT_KEY = os.getenv('FLASHCARDS_SNAPSHOT_KEY', 'sqlite_db_file')
LOG_LEVEL = os.getenv('FLASHCARDS_LOG_LEVEL', 'INFO').upper()

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=LOG_LEVEL
)
