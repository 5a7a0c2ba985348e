"""Allow ``python -m zkvm_blueprint``."""
from zkvm_blueprint.cli import main

if __name__ == "__main__":
    main()
