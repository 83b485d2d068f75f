import os
import sys

# Add the project root to the python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from candycost.cli import main

if __name__ == '__main__':
    sys.exit(main())
