from pgstage.cli import main

main()
