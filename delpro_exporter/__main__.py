import sys

from delpro_exporter.cli import main

sys.exit(main())
