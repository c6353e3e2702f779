"""Archive naming and compression settings."""

# Every archive is named "<prefix> <world> <timestamp><suffix>"
ARCHIVE_PREFIX = "World Backup"
ARCHIVE_SUFFIX = ".tar.gz"

# Suffix of the temporary file an archive is streamed into before it is
# moved into place
PARTIAL_SUFFIX = ".part"

# Timestamp embedded in archive names (day first, so lexicographic order
# is not chronological across months)
TIME_FORMAT = "%d-%m-%Y %H_%M_%S"

# Timestamp shown in log output
TIME_FORMAT_HUMAN = "%d-%m-%Y %H:%M:%S"

# gzip level 9: backups are infrequent, size matters more than speed
COMPRESSION_LEVEL = 9

# Top-level directory every entry is placed under inside the archive
DEFAULT_ARCHIVE_ROOT = "7DaysToDieServer_Data"
