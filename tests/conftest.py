import os
import tempfile

# The API module builds its store from settings at import time.
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="bracket-ladder-"))
os.environ.setdefault("REBUILD_ON_STARTUP", "false")
