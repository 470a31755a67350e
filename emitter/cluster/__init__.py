"""Subscription events, peers, membership and the gossip swarm of a broker cluster."""