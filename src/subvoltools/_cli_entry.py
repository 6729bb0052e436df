"""Console-script entry point; reports a missing click install plainly."""

import sys


def main():
    try:
        from .cli import main as cli_main
    except ImportError as exc:
        if exc.name != "click":
            raise
        print(
            "subvoltools: the command-line interface needs click, which is\n"
            "not installed. Install the 'cli' extra:\n"
            "    pip install 'btrfs-subvolume-tools[cli]'",
            file=sys.stderr,
        )
        raise SystemExit(1)
    cli_main(prog_name="subvoltools")
