from spike_echo import main

main()
