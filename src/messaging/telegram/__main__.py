"""Run the OpenRouter bot with: python -m src.messaging.telegram"""

from src.messaging.telegram.polling import main

if __name__ == "__main__":
    main()
