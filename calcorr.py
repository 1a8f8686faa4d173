#!/usr/bin/env python3

import sys
from sys import argv

from calcorr_correct import flat, response

if __name__ == "__main__":
    err_str = "Help: correct usage is `calcorr.py __process-name__ /path/to/config_file.json` \nProcess name must be one of (flat|response)"
    if len(argv) != 3:
        print(err_str)
        sys.exit(1)

    _, process, config = argv

    match process:
        case "flat":
            ok = flat(config)
        case "response":
            ok = response(config)
        case _:
            print(err_str)
            ok = False
    sys.exit(0 if ok else 1)
