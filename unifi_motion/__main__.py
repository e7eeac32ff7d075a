"""
Entry point for python -m unifi_motion
"""
from .app import main

if __name__ == "__main__":
    main()
