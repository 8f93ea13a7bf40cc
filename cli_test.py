import sys
import uuid

import requests

base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:3000"
session_id = f"cli-{uuid.uuid4().hex[:8]}"

models = requests.get(f"{base_url}/api/models").json()
model = models["default"]
print(f"Sessão: {session_id}, modelo: {model}")

while True:
    msg = input("Você: ")
    if msg.lower() in ["sair", "exit"]:
        break
    if msg.lower() == "reset":
        resp = requests.post(f"{base_url}/api/reset", json={"sessionId": session_id})
        print("Bot:", resp.json().get("message") or resp.json().get("error"))
        continue

    resp = requests.post(
        f"{base_url}/api/chat",
        json={"sessionId": session_id, "model": model, "prompt": msg}
    )
    data = resp.json()
    if resp.ok:
        print("Bot:", data["choices"][0]["message"]["content"])
    else:
        print(f"Erro {resp.status_code}:", data.get("error"))
