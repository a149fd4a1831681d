import sys

from picking_replenishment.main import main

if __name__ == "__main__":
    sys.exit(main())
