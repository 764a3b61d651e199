import logging
import os
from dotenv import load_dotenv

from utils.constants import CORE_VERSION

load_dotenv()

GENERATOR = os.getenv('MFLASH_GENERATOR') or f'morflash-py/{CORE_VERSION}'

# None means the system temp directory
TMP_DIR = os.getenv('MFLASH_TMP_DIR') or None

LOG_LEVEL = os.getenv('MFLASH_LOG_LEVEL', 'INFO').upper()

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL, logging.INFO)
)
