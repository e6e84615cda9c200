"""Entry point for ``python -m btclient``."""

from __future__ import annotations

from btclient.cli.main import main

if __name__ == "__main__":
    main()
