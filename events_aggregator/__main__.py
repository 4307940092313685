from events_aggregator.main import main

main()
