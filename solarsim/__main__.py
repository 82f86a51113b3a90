from solarsim.cli import main

raise SystemExit(main())
