"""
Entry point script for the ask-steps application.
This allows running the app directly from the project root.
"""
from ask_steps.main import main

if __name__ == "__main__":
    main()
