"""Run the tm-local command line tool with `python -m tm_local`."""

from tm_local.tool.tm_local import main

if __name__ == "__main__":
    main()
