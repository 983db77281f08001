from ekg.discovery.directly_follows import DirectlyFollowsBuilder, build_chain

__all__ = ["DirectlyFollowsBuilder", "build_chain"]
