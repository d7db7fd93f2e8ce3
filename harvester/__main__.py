import sys

from harvester.app import main

if __name__ == "__main__":
    sys.exit(main())
