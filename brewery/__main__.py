from brewery.cli import main

main()
