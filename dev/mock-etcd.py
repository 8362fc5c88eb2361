#!/usr/bin/env python3
"""Mock etcd v3 JSON gateway for local development (single healthy member)."""

import sys

from flask import Flask, Response, jsonify

app = Flask(__name__)

PORT = 12379
MEMBER_ID = "10276657743932975437"
HEADER = {"cluster_id": "14841639068965178418", "member_id": MEMBER_ID, "revision": "1", "raft_term": "2"}


@app.route("/v3/cluster/member/list", methods=["POST"])
def member_list():
    """Return a one-member cluster advertising this server."""
    return jsonify(
        {
            "header": HEADER,
            "members": [
                {
                    "ID": MEMBER_ID,
                    "name": "default",
                    "peerURLs": ["http://localhost:2380"],
                    "clientURLs": [f"http://127.0.0.1:{PORT}"],
                }
            ],
        }
    )


@app.route("/v3/maintenance/status", methods=["POST"])
def status():
    """Return a healthy leader status."""
    return jsonify(
        {
            "header": HEADER,
            "version": "3.5.17",
            "dbSize": "20480",
            "dbSizeInUse": "16384",
            "leader": MEMBER_ID,
            "raftIndex": "4",
            "raftTerm": "2",
            "raftAppliedIndex": "4",
        }
    )


@app.route("/v3/kv/range", methods=["POST"])
def kv_range():
    """Return an empty range."""
    return jsonify({"header": HEADER})


@app.route("/metrics")
def metrics():
    """Return a minimal Prometheus exposition."""
    body = "\n".join(
        [
            "# TYPE etcd_server_has_leader gauge",
            "etcd_server_has_leader 1",
            "etcd_server_leader_changes_seen_total 1",
            "etcd_mvcc_db_total_size_in_bytes 20480",
        ]
    )
    return Response(body + "\n", mimetype="text/plain")


if __name__ == "__main__":
    print(f"Mock etcd starting on http://0.0.0.0:{PORT}", file=sys.stderr)
    app.run(host="0.0.0.0", port=PORT, debug=False)
