"""Allow `python -m btstream`."""

from __future__ import annotations

from btstream.cli.main import main

if __name__ == "__main__":
    main()
