from pkgdag.modules.cli import main

raise SystemExit(main())
