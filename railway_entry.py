import sys

import main
import server

if __name__ == "__main__":
    print("☠️  INITIALIZING HOPELESS BOT FOR RAILWAY ☠️")

    # 1. Event feed server (daemon thread)
    server.start_in_background(main.get_status)

    # 2. Bot scheduler in the main thread (owns the signal handlers)
    sys.exit(main.main())
