import sys

from sql_exporter.app import main

sys.exit(main())
