"""Console entry point for the datapipe command."""

from datapipe.datapipe import cli


def main():
    cli()


if __name__ == '__main__':
    main()
