import os
import tempfile

# Keep config.json / tally.log / pending.json out of the source tree.
os.environ.setdefault("TALLY_HOME", tempfile.mkdtemp(prefix="tally_test_home_"))
