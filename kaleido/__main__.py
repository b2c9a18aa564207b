from .kaleidoc import main

raise SystemExit(main())
