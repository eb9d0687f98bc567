"""Allow running vm-installer with `python -m vminstaller`."""

from vminstaller.cli import main

if __name__ == "__main__":
    main()
