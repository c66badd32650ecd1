"""Package entry point for ``python -m microvideo_pipeline``.

WHY: Users run the pipeline as ``python -m microvideo_pipeline job.json``.
Python's ``-m`` flag looks for ``__main__.py`` inside the package and
executes it.
"""

import sys

if __name__ == "__main__":
    from microvideo_pipeline.cli import main

    sys.exit(main())
