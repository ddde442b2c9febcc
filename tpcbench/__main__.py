from tpcbench.main import main

raise SystemExit(main())
