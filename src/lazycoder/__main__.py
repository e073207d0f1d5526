from lazycoder.main import main

main()
