#!/usr/bin/env python3
"""
Thin entrypoint that delegates to the modular TurnTalker package.
Speech recognition, speech synthesis and the response catalog sit behind
ports, so the turn-taking controller can run against any engine binding.
"""

from turntalker.main import main

if __name__ == "__main__":
    main()
