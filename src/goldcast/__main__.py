from goldcast.cli import main

main()
