import argparse
import sys

COMMANDS = {
    "simulate": "Evolve Investors over a date range",
    "crucible": "Replay Investor DNA over several spans",
}


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="fxevo unified CLI: simulate, crucible",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="commands:\n" + "\n".join(f"  {name:<10} {text}" for name, text in COMMANDS.items())
    )

    # the command is positional so REMAINDER also captures options such as --config
    parser.add_argument("command", choices=list(COMMANDS))
    parser.add_argument('args', nargs=argparse.REMAINDER)

    args = parser.parse_args(argv)

    if args.command == "simulate":
        from .simulate import simulate_command
        simulate_command(args.args)
    elif args.command == "crucible":
        from .crucible import crucible_command
        crucible_command(args.args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
