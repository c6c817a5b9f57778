"""Run the stack-plugin command line tool with `python -m stack_plugin`."""

from stack_plugin.tool.stack_plugin import main

if __name__ == "__main__":
    main()
