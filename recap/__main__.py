from recap.runner import main

main()
