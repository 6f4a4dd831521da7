from magnifier_client.launcher import main

raise SystemExit(main())
