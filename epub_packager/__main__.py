"""Package entry point for ``python -m epub_packager``."""

from epub_packager.cli import main

if __name__ == "__main__":
    main()
