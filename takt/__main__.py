"""
Run the CLI as a module: ``python -m takt run -- COMMAND``.
"""
from takt import cli

if __name__ == '__main__':
    cli.main(prog_name='takt')
