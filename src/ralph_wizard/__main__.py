from ralph_wizard.cli import main

main()
