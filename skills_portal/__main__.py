"""Allow running as: python -m skills_portal"""

import sys

from skills_portal.main import run, serve

if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    else:
        run(sys.argv[1] if len(sys.argv) > 1 else "")
