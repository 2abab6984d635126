import sys

from licensemanager.cli import main

sys.exit(main())
