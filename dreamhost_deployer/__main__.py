import sys

from dreamhost_deployer.main import main

sys.exit(main())
