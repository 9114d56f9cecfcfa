from mpwbuild.cli import main

raise SystemExit(main())
