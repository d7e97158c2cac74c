import sys

from s3_permission_matrix.cli import main

sys.exit(main())
