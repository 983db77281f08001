from ekg.export.writer import graph_to_dict, to_csv, to_json

__all__ = ["graph_to_dict", "to_csv", "to_json"]
