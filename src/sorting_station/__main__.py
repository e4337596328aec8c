from sorting_station.main import main

main()
