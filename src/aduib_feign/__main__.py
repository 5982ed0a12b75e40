import sys

from aduib_feign.cli import main

if __name__ == "__main__":
    sys.exit(main())
