REPO_DIR = ".plane"
BLOBS_SUBDIR = "blobs"
STATE_FILE = "plane.db"

DEFAULT_BRANCH = "master"
INITIAL_MESSAGE = "initial commit"

CONFLICT_SUFFIX = ".conflicted"
BLOB_NAME_PREFIX = "FILE"

# Refused skip answers for one commit before a rebase gives up
MAX_SKIP_REFUSALS = 3
