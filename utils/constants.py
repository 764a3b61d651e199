from enum import Enum

CORE_VERSION = '0.1.0'

FORMAT_TAG = 'morflash.mflash'
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = (1,)

# Deck Store schema version, tracked in the meta table independently of FORMAT_VERSION
SCHEMA_VERSION = 1

# Archive entry names
MANIFEST_ENTRY = 'manifest.json'
DATABASE_ENTRY = 'deck.sqlite'
MEDIA_PREFIX = 'media/'
THUMBNAIL_ENTRY = 'thumbnail.png'
THEME_ENTRY = 'theme.toml'

OPTIONAL_ENTRIES = (THUMBNAIL_ENTRY, THEME_ENTRY)

UTC_FORMAT = '%Y-%m-%dT%H:%M:%SZ'
DB_UTC_FORMAT = '%Y-%m-%dT%H:%M:%S.%fZ'


class MediaKind(str, Enum):
    IMAGE = 'image'
    AUDIO = 'audio'
    VIDEO = 'video'
    OTHER = 'other'
