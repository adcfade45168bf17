import argparse
import asyncio
import logging

from barberbook.core.logging import setup_logging
from barberbook.services.agent import agent

async def main(tenant_id: str, phone: str):
    print("--- Barberbook Booking Agent CLI ---")
    print(f"Chatting as {phone} with tenant {tenant_id}.")
    print("Type 'exit' or 'quit' to stop.")
    print("---")

    while True:
        try:
            user_input = input("\nYou: ")
            if user_input.lower() in ["exit", "quit", "q"]:
                print("Tchau!")
                break

            if not user_input.strip():
                continue

            print("AI is thinking...")
            response = await agent.get_response(user_input, phone=phone, tenant_id=tenant_id)
            print(f"AI: {response}")

        except KeyboardInterrupt:
            print("\nTchau!")
            break
        except Exception as e:
            print(f"An error occurred: {e}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Talk to the booking agent against a real tenant.")
    parser.add_argument("tenant_id", help="organization id (uuid)")
    parser.add_argument("--phone", default="5511999990000", help="customer WhatsApp number")
    args = parser.parse_args()

    setup_logging(logging.WARNING)
    asyncio.run(main(args.tenant_id, args.phone))
