"""Allow running as: python -m sartwc_control"""

from .daemon import main

if __name__ == "__main__":
    main()
