"""Allow ``python -m telemon`` to boot the supervisor."""

from .entrypoint import main

raise SystemExit(main())
