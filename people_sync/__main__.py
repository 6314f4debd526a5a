from people_sync.main import main

main()
