from cert_sync.cli import main

main()
