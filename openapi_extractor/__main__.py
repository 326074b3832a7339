from openapi_extractor.cli import main

raise SystemExit(main())
