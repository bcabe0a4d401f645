import sys
from pathlib import Path

# allow running the suite from a source checkout without installing
SRC = Path(__file__).resolve().parent / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
